"""Per-viewer edit rights and author details for book comments."""
import logging
from typing import Dict, List, Optional, Sequence

from bookcatalog.models import Comment
from bookcatalog.stores import IdentityStore

logger = logging.getLogger(__name__)


class CommentAuthorizationEvaluator:
    """Compute ``can_edit`` for comments against the current viewer."""

    def __init__(self, identities: IdentityStore):
        self.identities = identities

    def evaluate(self, comments: Sequence[Comment], viewer_username: Optional[str]) -> List[Comment]:
        """
        Set ``can_edit`` on each comment for this viewer.

        A viewer may edit a comment they wrote, and admins may edit any.
        Admin status is looked up once per call, on the first comment.

        Args:
            comments: Comments to annotate, modified in place
            viewer_username: Current user, or None for an anonymous viewer

        Returns:
            The same comments, in input order

        Raises:
            UnknownIdentity: Viewer is not a known user
        """
        viewer_is_admin = None

        for comment in comments:
            if viewer_username is None:
                comment.can_edit = False
                continue

            if viewer_is_admin is None:
                viewer_is_admin = self.identities.is_admin(viewer_username)

            comment.can_edit = viewer_is_admin or comment.author == viewer_username
            logger.debug(f"Comment {comment.comment_id}: can_edit={comment.can_edit} for {viewer_username}")

        return list(comments)

    def attach_author_pictures(self, comments: Sequence[Comment]) -> List[Comment]:
        """
        Fill ``author_pic_url`` from each author's profile.

        Raises:
            UnknownIdentity: A comment author is not a known user
        """
        pictures: Dict[str, Optional[str]] = {}

        for comment in comments:
            if comment.author not in pictures:
                user = self.identities.get_user(comment.author)
                pictures[comment.author] = user.profile_picture_url
            comment.author_pic_url = pictures[comment.author]

        return list(comments)
