"""Desktop shell lifecycle"""

from tixbot.shell.app import ShellApp

__all__ = ["ShellApp"]
