"""
Main CLI Entry Point
Run the deployer from a source checkout: python main.py deploy --help
"""

from stack_deployer.cli import main


if __name__ == "__main__":
    main()
