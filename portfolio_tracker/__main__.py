"""Allow ``python -m portfolio_tracker``."""

from portfolio_tracker.main import main

if __name__ == "__main__":
    main()
