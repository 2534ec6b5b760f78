"""REST clients for the vendor services behind the pipeline capabilities."""

from .asana import AsanaTaskCreator
from .commonsku import CommonSkuClient
from .drive import GoogleDriveProvisioner
from .slack import SlackNotifier

__all__ = [
    "AsanaTaskCreator",
    "CommonSkuClient",
    "GoogleDriveProvisioner",
    "SlackNotifier",
]
