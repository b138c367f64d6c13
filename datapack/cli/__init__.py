"""
datapack CLI.

Usage:
    datapack pack <module>... [-o FILE]
    datapack inspect <script>
    datapack show <script> <module>
"""

__version__ = "0.1.0"
__cli_name__ = "datapack"


def main():
    """Wrapper to avoid eager import of __main__ which causes warnings with -m."""
    from .__main__ import main as _main
    return _main()
