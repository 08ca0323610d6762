"""Run the update-controller command line tool."""

from update_controller.tool.update_controller import main

if __name__ == "__main__":
    main()
