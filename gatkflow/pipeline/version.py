__version__ = "0.1.0"
__git_revision__ = ""
