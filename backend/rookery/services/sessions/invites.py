import logging
from typing import Callable, List, Optional, Tuple

from rookery import db
from rookery.models import Invite, User

from .registry import Binding, ConnectionRegistry, Identity


class InviteNotFound(Exception):
    def __init__(self, invite_id: str):
        self.invite_id = invite_id
        super().__init__(f"Invite '{invite_id}' not found")


class InviteAlreadyAnswered(Exception):
    def __init__(self, invite_id: str, status: str):
        self.invite_id = invite_id
        self.status = status
        super().__init__(f"Invite '{invite_id}' already {status}")


class RecipientNotFound(Exception):
    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class InviteRelay:
    """Pushes challenge invites to a user's open connections.

    Delivery is best effort. An offline recipient finds the invite in the
    inbox later; the sender is never told about the answer.
    """

    def __init__(self, registry: ConnectionRegistry, push: Callable[[Binding, str, dict], None],
                 logger: Optional[logging.Logger] = None) -> None:
        self._registry = registry
        self._push = push
        self._logger = logger or logging.getLogger(__name__)

    def send(self, sender: Identity, to_user_id: int, room_id: str) -> Invite:
        if to_user_id == sender.id:
            raise ValueError('Cannot invite yourself')
        if db.session.get(User, to_user_id) is None:
            raise RecipientNotFound(to_user_id)

        invite = Invite(
            from_user_id=sender.id,
            from_username=sender.username,
            to_user_id=to_user_id,
            room_id=room_id,
            status='pending',
        )
        db.session.add(invite)
        db.session.commit()

        payload = {'invite': invite.to_dict()}
        delivered = 0
        for binding in self._registry.connections_for(to_user_id):
            try:
                self._push(binding, 'new_invite', payload)
                delivered += 1
            except Exception as exc:
                self._logger.warning(f"[invite-push-failed] invite={invite.id} sid={binding.sid}: {exc}")
        self._logger.info(
            f"[invite] id={invite.id} from={sender.id} to={to_user_id} room={room_id} delivered={delivered}"
        )
        return invite

    def inbox(self, user_id: int) -> List[Invite]:
        return (
            Invite.query.filter_by(to_user_id=user_id, status='pending')
            .order_by(Invite.created_at.desc())
            .all()
        )

    def respond(self, invite_id: str, responder: Identity, action: str) -> Tuple[str, str]:
        """Accept or decline an invite addressed to ``responder``.

        Returns (status, room_id). Accepted invites are deleted.
        """
        if action not in ('accept', 'decline'):
            raise ValueError('Invalid action')
        invite = Invite.query.filter_by(id=invite_id, to_user_id=responder.id).first()
        if invite is None:
            raise InviteNotFound(invite_id)
        if invite.status != 'pending':
            raise InviteAlreadyAnswered(invite_id, invite.status)

        status = 'accepted' if action == 'accept' else 'declined'
        room_id = invite.room_id
        invite.status = status
        if status == 'accepted':
            db.session.delete(invite)
        else:
            db.session.add(invite)
        db.session.commit()
        self._logger.info(f"[invite-{status}] id={invite_id} by={responder.id} room={room_id}")
        return status, room_id
