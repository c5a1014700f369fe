"""reviewharvester entry point.

    python -m reviewharvester --url https://www.aliexpress.com/item/1005006.html --target 50
"""

from .run import main

if __name__ == "__main__":
    main()
