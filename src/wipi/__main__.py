"""Run the wipi command-line interface."""

from .cli import main

raise SystemExit(main())
