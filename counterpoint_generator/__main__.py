"""Entry point wrapper for ``python -m counterpoint_generator``.

When the package is executed as a module the code here simply forwards
execution to :func:`counterpoint_generator.main`, so ``python -m
counterpoint_generator`` and the installed ``counterpoint-generator`` console
script behave identically.

Example
-------
The following invocation writes a second-species phrase in G major::

    python -m counterpoint_generator --key G --species 2 --seed 5 \
        --output phrase.mid
"""

from . import main

if __name__ == "__main__":
    main()
