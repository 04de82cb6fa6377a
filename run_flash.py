from __future__ import annotations
import sys

def main():
    if len(sys.argv) == 1:
        # GUI (нужен PySide6: pip install .[gui])
        import flash_tool.gui.main_qt as _gui_mod
        _gui_mod.main()
    else:
        # CLI
        import flash_tool.main as _cli_mod
        _cli_mod.app()

if __name__ == "__main__":
    main()
