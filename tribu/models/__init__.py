from tribu.models.attendee import Attendee
from tribu.models.comment import Comment
from tribu.models.event import Event, EventCategory
from tribu.models.group import Group
from tribu.models.push_subscription import PushSubscription

__all__ = ["Event", "EventCategory", "Attendee", "Comment", "Group", "PushSubscription"]
