"""Run nettap with `python -m nettap`."""

from nettap import main

if __name__ == "__main__":
    main()
