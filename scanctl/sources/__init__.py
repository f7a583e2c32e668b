"""
Content stores for repositories on disk and on GitHub.
"""

from .local import LocalContentStore
from .github import GitHubContentStore

__all__ = ['LocalContentStore', 'GitHubContentStore']
