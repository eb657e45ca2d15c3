"""Allow ``python -m ragdesk.cli`` execution."""

from ragdesk.cli.commands import main

main()
