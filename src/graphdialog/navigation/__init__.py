from graphdialog.navigation.navigator import Navigator

__all__ = ["Navigator"]
