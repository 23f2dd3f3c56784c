"""Main entry point for the oem_unlocker package."""
from oem_unlocker.cli import cli


def main():
    """Main entry point function."""
    cli()


if __name__ == "__main__":
    main()
