"""CLI entry point: python -m nvim_test_runner"""

from nvim_test_runner.cli import main

if __name__ == "__main__":
    main()
