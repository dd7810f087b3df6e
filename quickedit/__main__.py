"""
Entry point for `python -m quickedit`.

Routes to the CLI by default. The server has its own module entry:
  python -m quickedit           -> CLI (process, status, history, styles, serve)
  python -m quickedit.server    -> Backend HTTP server
"""

from quickedit.cli import main

main()
