"""
CLI entry point, when used as a module: `python -m kubemirror`.

Useful for debugging in the IDEs (use the start-mode "Module", module "kubemirror").
"""
from kubemirror import cli

if __name__ == '__main__':
    cli.main()
