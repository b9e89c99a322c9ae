"""Subscription state: per-relay EOSE tracking and inbound event buffers.

Each subscription tracks every relay it was sent to. A relay starts out
``AWAITING`` and becomes ``SETTLED`` when it sends ``EOSE`` for the
subscription, or when the caller gives up on it.
"""
import logging
import threading

from .event import extract_events
from .messages import EoseMessage, EventMessage

logger = logging.getLogger(__name__)

AWAITING = 'awaiting'
SETTLED = 'settled'


class Subscription:
  """One subscription's filters, relay states, and buffered ``EVENT`` frames.

  The buffer holds raw frames in arrival order. Identical frames are only
  stored once.

  Attributes:
    id (str)
    filters (list of :class:`filters.ReqFilter`)
    states (dict): maps str relay URL to :const:`AWAITING` or :const:`SETTLED`
  """

  def __init__(self, id, filters, relays=()):
    self.id = id
    self.filters = list(filters)
    self.states = {url: AWAITING for url in relays}
    self._frames = []
    self._seen = set()
    self._lock = threading.Lock()

  def __repr__(self):
    return f'Subscription({self.id!r}, states={self.states!r})'

  def add_relay(self, url):
    with self._lock:
      self.states.setdefault(url, AWAITING)

  def add_frame(self, raw):
    """Buffers a raw ``EVENT`` frame.

    Returns:
      bool: False if this exact frame was already buffered, True otherwise
    """
    with self._lock:
      if raw in self._seen:
        return False
      self._seen.add(raw)
      self._frames.append(raw)
      return True

  def settle(self, url):
    """Marks a relay as done sending stored events for this subscription.

    Ignored for relays that this subscription wasn't sent to.
    """
    with self._lock:
      if url in self.states:
        self.states[url] = SETTLED

  def is_settled(self, url=None):
    """Returns True if ``url``, or every relay if ``url`` is None, is settled."""
    with self._lock:
      if url is not None:
        return self.states.get(url) == SETTLED
      return all(state == SETTLED for state in self.states.values())

  def awaiting(self):
    """Returns the URLs of the relays that haven't settled yet."""
    with self._lock:
      return [url for url, state in self.states.items() if state == AWAITING]

  def drain(self):
    """Removes and returns the buffered frames.

    Returns:
      list of str
    """
    with self._lock:
      frames = self._frames
      self._frames = []
      return frames

  def events(self, verify=True):
    """Drains the buffer and parses it into events.

    Malformed frames and events are skipped. See :func:`event.extract_events`.

    Args:
      verify (bool): whether to skip events with invalid signatures

    Returns:
      list of :class:`event.Event`
    """
    return extract_events(self.drain(), verify=verify)


class SubscriptionPool:
  """The client's outstanding subscriptions, keyed by id. Thread safe."""

  def __init__(self):
    self._subscriptions = {}
    self._lock = threading.Lock()

  def __contains__(self, id):
    with self._lock:
      return id in self._subscriptions

  def __len__(self):
    with self._lock:
      return len(self._subscriptions)

  def add(self, subscription):
    with self._lock:
      self._subscriptions[subscription.id] = subscription

  def get(self, id):
    with self._lock:
      return self._subscriptions.get(id)

  def remove(self, id):
    """Removes and returns a subscription, or None if it doesn't exist."""
    with self._lock:
      return self._subscriptions.pop(id, None)

  def handle(self, url, raw, message):
    """Routes one classified relay message into its subscription.

    ``EVENT`` frames go into the subscription's buffer. ``EOSE`` settles the
    relay that sent it. Other messages, and messages for unknown subscriptions,
    are left for other handlers.

    Args:
      url (str): the relay that sent the message
      raw (str): the raw frame
      message: output of :func:`messages.parse_message`

    Returns:
      bool: True if the message was routed to a subscription, False otherwise
    """
    if isinstance(message, EventMessage):
      sub = self.get(message.subscription_id)
      if sub:
        sub.add_frame(raw)
        return True

    elif isinstance(message, EoseMessage):
      sub = self.get(message.subscription_id)
      if sub:
        logger.debug(f'{url} settled {sub.id}')
        sub.settle(url)
        return True

    return False
