"""Multi-relay Nostr client.

A :class:`Client` holds one :class:`relay.Relay` session per relay URL. It fans
``EVENT``, ``REQ`` and ``CLOSE`` messages out to all of them, and routes what
comes back into its subscriptions.

:meth:`Client.get_events_of` is the one-shot query: subscribe, read every relay
concurrently until each one sends ``EOSE`` or the deadline passes, ``CLOSE``,
then return the deduplicated events.

Example::

  identity = Identity.generate()
  client = Client(['wss://relay.example'])
  client.publish_text_note(identity, 'Hello #nostr')
  notes = client.get_events_of([ReqFilter(authors=[identity.pubkey])])
"""
import collections
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
import logging
import secrets
import threading
import time

from oauth_dropins.webutil import util
from oauth_dropins.webutil.util import HTTP_TIMEOUT, json_dumps
from websockets.exceptions import ConnectionClosed

from . import event as ev
from . import nip04, nip11, nip19
from .event import HASHTAG_CHARS
from .filters import ReqFilter
from .messages import close_message, event_message, parse_message, req_message
from .nip02 import Contact
from .relay import (
  AlreadyConnected,
  FanOutError,
  IncompleteQuery,
  NoRelays,
  Relay,
  RelayNotFound,
  validate_url,
)
from .subscription import Subscription, SubscriptionPool

logger = logging.getLogger(__name__)

# default deadline for every relay to send EOSE, in seconds
EOSE_TIMEOUT = 10

# receive slice, in seconds, between checks for settled subscriptions and stop
POLL_INTERVAL = .5

# raised by one relay's session. caught per relay, never aborts a fan-out.
# TimeoutError is an OSError, so callers that treat it differently must catch it
# first.
RELAY_ERRORS = (ConnectionClosed, OSError)

# NIP-16 event treatment
REPLACEABLE_NIP = 16

PrivateMessage = collections.namedtuple('PrivateMessage', [
  'author', 'content', 'timestamp'])
"""A decrypted NIP-04 direct message. ``author`` is a hex pubkey."""


def new_subscription_id():
  return secrets.token_urlsafe(16)


class Client:
  """A set of relay sessions, plus the subscriptions sent to them.

  Thread safe. The relay table is guarded by a lock, and each session serializes
  its own sends and receives.

  Attributes:
    timeout (float): websocket open and close timeout for new relays, in seconds
    eose_timeout (float): default :meth:`get_events_of` deadline, in seconds
    hashtag_chars (str): characters allowed in hashtags found by
      :meth:`publish_text_note`
    subscriptions (:class:`subscription.SubscriptionPool`)
  """

  def __init__(self, relays=(), timeout=HTTP_TIMEOUT, eose_timeout=EOSE_TIMEOUT,
               hashtag_chars=HASHTAG_CHARS):
    """Constructor. Connects to each relay in ``relays``.

    Args:
      relays (sequence of str): relay URLs
      timeout (float)
      eose_timeout (float)
      hashtag_chars (str)

    Raises:
      relay.RelayError: if a relay URL is invalid, duplicated, or can't be
        connected to. Relays that were already connected are closed.
    """
    self.timeout = timeout
    self.eose_timeout = eose_timeout
    self.hashtag_chars = hashtag_chars
    self.subscriptions = SubscriptionPool()
    self._relays = {}
    self._lock = threading.RLock()

    try:
      for url in relays:
        self.add_relay(url)
    except BaseException:
      self.close()
      raise

  def __repr__(self):
    return f'Client({self.relay_urls()!r})'

  #
  # Relay table
  #

  def add_relay(self, url):
    """Connects to a relay and adds it to the relay table.

    Args:
      url (str): ``ws://`` or ``wss://``

    Returns:
      relay.Relay

    Raises:
      relay.AlreadyConnected
      relay.UrlParseError
      relay.RelayConnectionError
    """
    with self._lock:
      if url in self._relays:
        raise AlreadyConnected(f'Already connected to {url}')
      session = self._relays[url] = Relay(url, timeout=self.timeout)

    logger.info(f'Added relay {url}')
    return session

  def remove_relay(self, url):
    """Closes a relay's session and removes it from the relay table.

    Raises:
      relay.RelayNotFound
    """
    with self._lock:
      session = self._relays.pop(url, None)

    if not session:
      raise RelayNotFound(f'Not connected to {url}')

    try:
      session.close()
    finally:
      logger.info(f'Removed relay {url}')

  def relay_urls(self):
    with self._lock:
      return list(self._relays)

  def relay(self, url):
    """Returns the session for a relay URL.

    Raises:
      relay.RelayNotFound
    """
    with self._lock:
      session = self._relays.get(url)

    if not session:
      raise RelayNotFound(f'Not connected to {url}')
    return session

  def close(self):
    """Closes and removes every relay."""
    for url in self.relay_urls():
      try:
        self.remove_relay(url)
      except RelayNotFound:
        pass

  def _sessions(self, urls=None):
    """Returns a snapshot of the relay sessions.

    Args:
      urls (sequence of str): optional, only these relays

    Raises:
      relay.RelayNotFound: if a URL in ``urls`` isn't connected
    """
    if urls is None:
      with self._lock:
        return list(self._relays.values())

    return [self.relay(url) for url in urls]

  def _fan_out(self, message, sessions, description):
    """Sends a message to each relay in ``sessions``.

    Returns:
      list of str: relay URLs the message was sent to

    Raises:
      relay.NoRelays: if ``sessions`` is empty
      relay.FanOutError: if any send fails. Other sends still happen.
    """
    if not sessions:
      raise NoRelays(f"No relays to send {description} to")

    succeeded = []
    failures = {}
    for session in sessions:
      try:
        session.send(message)
      except RELAY_ERRORS as e:
        logger.warning(f'Sending {description} to {session.url} failed: {e}')
        failures[session.url] = e
      else:
        succeeded.append(session.url)

    if failures:
      raise FanOutError(
        f'Sending {description} failed on {len(failures)} of {len(sessions)} relays: {", ".join(failures)}',
        failures=failures, succeeded=succeeded)

    return succeeded

  #
  # Core protocol
  #

  def publish(self, event, relays=None):
    """Sends an event to every connected relay.

    Args:
      event (:class:`event.Event`)
      relays (sequence of str): optional, only send to these relays

    Returns:
      list of str: relay URLs the event was sent to

    Raises:
      relay.NoRelays
      relay.FanOutError: includes the relays that did get the event. Those sends
        aren't rolled back.
    """
    logger.info(f'Publishing event {event.id}')
    return self._fan_out(event_message(event), self._sessions(relays),
                         f'event {event.id}')

  def subscribe(self, filters, id=None):
    """Sends a ``REQ`` to every connected relay.

    Relays that the ``REQ`` couldn't be sent to are marked settled, since they
    won't send ``EOSE``.

    Args:
      filters (:class:`filters.ReqFilter` or sequence of them): ORed
      id (str): optional subscription id. Defaults to a random string.

    Returns:
      str: subscription id

    Raises:
      relay.NoRelays
      relay.FanOutError: the subscription is still registered for the relays in
        its ``succeeded``
    """
    if isinstance(filters, ReqFilter):
      filters = [filters]
    if id is None:
      id = new_subscription_id()

    sessions = self._sessions()
    if not sessions:
      raise NoRelays('No relays to subscribe to')

    sub = Subscription(id, filters, relays=[s.url for s in sessions])
    # register before sending so that early EVENTs aren't dropped
    self.subscriptions.add(sub)

    try:
      self._fan_out(req_message(id, sub.filters), sessions, f'REQ {id}')
    except FanOutError as e:
      for url in e.failures:
        sub.settle(url)
      raise

    return id

  def unsubscribe(self, id):
    """Sends a ``CLOSE`` to every connected relay and forgets the subscription.

    Returns:
      :class:`subscription.Subscription`, or None if it wasn't known

    Raises:
      relay.NoRelays
      relay.FanOutError
    """
    sub = self.subscriptions.remove(id)
    self._fan_out(close_message(id), self._sessions(), f'CLOSE {id}')
    return sub

  def poll(self, url, timeout=None):
    """Reads one frame from a relay and routes it into the subscriptions.

    Args:
      url (str)
      timeout (float): seconds. None waits forever.

    Returns:
      the frame classified by :func:`messages.parse_message`, or None if it
      wasn't recognized

    Raises:
      relay.RelayNotFound
      TimeoutError
      websockets.exceptions.ConnectionClosed
    """
    return self._receive(self.relay(url), timeout=timeout)

  def _receive(self, session, timeout=None):
    raw = session.recv(timeout=timeout)
    message = parse_message(raw)
    if message is None:
      logger.warning(f'Skipping unrecognized frame from {session.url}: {raw[:100]}')
    else:
      self.subscriptions.handle(session.url, raw, message)
    return message

  def listen(self, handler, stop=None):
    """Reads from every relay concurrently and hands each message to a handler.

    Every recognized message, including ``OK`` and ``NOTICE``, goes to
    ``handler(url, message)``, after ``EVENT`` and ``EOSE`` are routed into the
    subscriptions. ``handler`` is called from worker threads.

    Returns when ``stop`` is set or every relay has closed its connection. If
    ``handler`` raises, ``stop`` is set, the other relays stop, and the exception
    propagates.

    Args:
      handler (callable): takes str relay URL and the classified message
      stop (threading.Event): optional

    Raises:
      relay.NoRelays
      Exception: whatever ``handler`` raises
    """
    sessions = self._sessions()
    if not sessions:
      raise NoRelays('No relays to listen to')
    if stop is None:
      stop = threading.Event()

    with ThreadPoolExecutor(max_workers=len(sessions),
                            thread_name_prefix='nostrum-listen') as executor:
      futures = [executor.submit(self._listen, session, handler, stop)
                 for session in sessions]
      done, _ = wait(futures, return_when=FIRST_EXCEPTION)
      if any(future.exception() for future in done):
        stop.set()

    for future in futures:
      future.result()

  def _listen(self, session, handler, stop):
    while not stop.is_set():
      try:
        message = self._receive(session, timeout=POLL_INTERVAL)
      except TimeoutError:
        continue
      except RELAY_ERRORS as e:
        logger.warning(f'Stopped listening to {session.url}: {e}')
        return

      if message is not None:
        handler(session.url, message)

  def get_events_of(self, filters, timeout=None, verify=True):
    """Queries every relay and returns the stored events that match.

    Sends the ``REQ``, then reads all relays concurrently until each one sends
    ``EOSE``, fails, or the deadline passes. Then sends ``CLOSE`` and returns the
    events, deduplicated by id. Malformed events, and events with invalid
    signatures if ``verify`` is True, are skipped.

    Args:
      filters (:class:`filters.ReqFilter` or sequence of them): ORed
      timeout (float): seconds to wait for ``EOSE``. Defaults to
        :attr:`eose_timeout`.
      verify (bool)

    Returns:
      list of :class:`event.Event`

    Raises:
      relay.NoRelays
      relay.IncompleteQuery: if any relay failed or didn't send ``EOSE`` in
        time. Carries the events that did arrive in ``partial``.
    """
    if timeout is None:
      timeout = self.eose_timeout
    deadline = time.monotonic() + timeout

    id = new_subscription_id()
    failed = {}
    try:
      self.subscribe(filters, id=id)
    except FanOutError as e:
      failed.update(e.failures)

    sub = self.subscriptions.get(id)
    awaiting = sub.awaiting()
    sessions = [s for s in self._sessions() if s.url in awaiting]

    # relays removed since the REQ went out won't be read
    read = {s.url for s in sessions}
    for url in awaiting:
      if url in read:
        continue
      logger.warning(f'{url} was removed before {id} finished')
      failed[url] = RelayNotFound(f'Not connected to {url}')

    if sessions:
      with ThreadPoolExecutor(max_workers=len(sessions),
                              thread_name_prefix='nostrum-query') as executor:
        futures = {executor.submit(self._collect, session, sub, deadline):
                   session.url for session in sessions}
        for future, url in futures.items():
          err = future.result()
          if err:
            failed[url] = err

    timed_out = [url for url in sub.awaiting() if url not in failed]
    for url in timed_out + list(failed):
      sub.settle(url)

    try:
      self.unsubscribe(id)
    except (FanOutError, NoRelays) as e:
      logger.warning(f"Couldn't close {id} everywhere: {e}")
      self.subscriptions.remove(id)

    events = sub.events(verify=verify)
    logger.info(f'Got {len(events)} events for {id}')

    if timed_out or failed:
      raise IncompleteQuery(
        f'{len(timed_out)} relays timed out, {len(failed)} failed',
        partial=events, timed_out=timed_out, failed=failed)

    return events

  def _collect(self, session, sub, deadline):
    """Reads from one relay until it settles ``sub`` or ``deadline`` passes.

    Returns:
      Exception, or None: the relay's failure, if any
    """
    while not sub.is_settled(session.url):
      remaining = deadline - time.monotonic()
      if remaining <= 0:
        logger.warning(f"{session.url} didn't send EOSE for {sub.id} in time")
        return None

      try:
        self._receive(session, timeout=min(remaining, POLL_INTERVAL))
      except TimeoutError:
        continue
      except RELAY_ERRORS as e:
        logger.warning(f'Reading {sub.id} from {session.url} failed: {e}')
        return e

    return None

  #
  # Protocol extensions
  #

  def _publish_new(self, identity, kind, content, tags=(), difficulty=0,
                   relays=None):
    """Builds, mines, signs and publishes a new event.

    Returns:
      :class:`event.Event`
    """
    event = ev.make_event(identity, kind, content, tags=tags,
                          difficulty=difficulty)
    self.publish(event, relays=relays)
    return event

  def set_metadata(self, identity, name=None, about=None, picture=None,
                   difficulty=0):
    """Publishes a profile metadata event, kind 0.

    Only the fields that are set are included.

    Raises:
      ValueError: if no fields are set
    """
    metadata = util.trim_nulls({
      'name': name,
      'about': about,
      'picture': picture,
    })
    if not metadata:
      raise ValueError('Need at least one of name, about, picture')

    return self._publish_new(identity, ev.KIND_PROFILE, json_dumps(metadata),
                             difficulty=difficulty)

  def publish_text_note(self, identity, content, tags=(), difficulty=0):
    """Publishes a text note, kind 1, with a ``t`` tag for each hashtag."""
    tags = [list(tag) for tag in tags]
    for hashtag in ev.hashtags(content, chars=self.hashtag_chars):
      tag = ['t', hashtag]
      if tag not in tags:
        tags.append(tag)

    return self._publish_new(identity, ev.KIND_NOTE, content, tags=tags,
                             difficulty=difficulty)

  def publish_pow_text_note(self, identity, content, tags=(), difficulty=0):
    """Publishes a text note with NIP-13 proof of work."""
    return self.publish_text_note(identity, content, tags=tags,
                                  difficulty=difficulty)

  def add_recommended_relay(self, identity, url, difficulty=0):
    """Publishes a relay recommendation, kind 2.

    Raises:
      relay.UrlParseError
    """
    return self._publish_new(identity, ev.KIND_RECOMMEND_RELAY,
                             validate_url(url), difficulty=difficulty)

  def set_contact_list(self, identity, contacts, difficulty=0):
    """Publishes a contact list, kind 3.

    Args:
      identity (keys.Identity)
      contacts (sequence of :class:`nip02.Contact` or str pubkey)
    """
    tags = [(c if isinstance(c, Contact) else Contact(c)).to_tag()
            for c in contacts]
    return self._publish_new(identity, ev.KIND_CONTACTS, '', tags=tags,
                             difficulty=difficulty)

  def get_contact_list(self, pubkey, timeout=None):
    """Fetches a user's latest contact list.

    Args:
      pubkey (str): hex or ``npub``
      timeout (float)

    Returns:
      list of :class:`nip02.Contact`

    Raises:
      relay.IncompleteQuery
    """
    pubkey = nip19.to_hex(pubkey, expected='npub')
    events = self.get_events_of([ReqFilter(authors=[pubkey],
                                           kinds=[ev.KIND_CONTACTS])],
                                timeout=timeout)
    if not events:
      return []

    latest = max(events, key=lambda e: e.created_at)
    contacts = [Contact.from_tag(tag) for tag in latest.tags]
    return [c for c in contacts if c]

  def send_private_message(self, identity, pubkey, message, difficulty=0):
    """Sends a NIP-04 encrypted direct message, kind 4.

    Args:
      identity (keys.Identity): sender
      pubkey (str): recipient, hex or ``npub``
      message (str): plaintext
    """
    pubkey = nip19.to_hex(pubkey, expected='npub')
    shared = nip04.shared_secret(identity.secret_key, pubkey)
    return self._publish_new(identity, ev.KIND_DM,
                             nip04.encrypt(shared, message),
                             tags=[['p', pubkey]], difficulty=difficulty)

  def get_private_events_with(self, identity, pubkey, limit=None,
                              timeout=None):
    """Fetches the encrypted direct messages between two users, both ways.

    Args:
      identity (keys.Identity)
      pubkey (str): the other user, hex or ``npub``
      limit (int): optional, per direction

    Returns:
      list of :class:`event.Event`, newest first

    Raises:
      relay.IncompleteQuery
    """
    pubkey = nip19.to_hex(pubkey, expected='npub')
    events = self.get_events_of([
      ReqFilter(authors=[identity.pubkey], kinds=[ev.KIND_DM], p=[pubkey],
                limit=limit),
      ReqFilter(authors=[pubkey], kinds=[ev.KIND_DM], p=[identity.pubkey],
                limit=limit),
    ], timeout=timeout)
    return sorted(events, key=lambda e: e.created_at, reverse=True)

  def get_private_messages_with(self, identity, pubkey, limit=None,
                                timeout=None):
    """Fetches and decrypts the direct messages between two users.

    Messages that can't be decrypted are skipped.

    Returns:
      list of :class:`PrivateMessage`, newest first

    Raises:
      relay.IncompleteQuery
    """
    pubkey = nip19.to_hex(pubkey, expected='npub')
    shared = nip04.shared_secret(identity.secret_key, pubkey)

    messages = []
    for event in self.get_private_events_with(identity, pubkey, limit=limit,
                                              timeout=timeout):
      try:
        content = nip04.decrypt(shared, event.content)
      except nip04.DecryptionError as e:
        logger.info(f"Couldn't decrypt {event.id}: {e}")
        continue
      messages.append(PrivateMessage(author=event.pubkey, content=content,
                                     timestamp=event.created_at))

    return messages

  def delete_event(self, identity, event_id, reason='', difficulty=0):
    """Publishes a deletion request, kind 5.

    Args:
      event_id (str): hex or ``note``
      reason (str)
    """
    event_id = nip19.to_hex(event_id, expected='note')
    return self._publish_new(identity, ev.KIND_DELETE, reason,
                             tags=[['e', event_id]], difficulty=difficulty)

  def react_to(self, identity, event_id, pubkey, reaction, difficulty=0):
    """Publishes a reaction, kind 7.

    Args:
      identity (keys.Identity)
      event_id (str): hex or ``note``
      pubkey (str): the event's author, hex or ``npub``
      reaction (str): ``+`` to like, ``-`` to dislike, or an emoji
    """
    event_id = nip19.to_hex(event_id, expected='note')
    pubkey = nip19.to_hex(pubkey, expected='npub')
    return self._publish_new(identity, ev.KIND_REACTION, reaction,
                             tags=[['e', event_id], ['p', pubkey]],
                             difficulty=difficulty)

  def like(self, identity, event_id, pubkey, difficulty=0):
    return self.react_to(identity, event_id, pubkey, '+', difficulty=difficulty)

  def dislike(self, identity, event_id, pubkey, difficulty=0):
    return self.react_to(identity, event_id, pubkey, '-', difficulty=difficulty)

  def publish_replaceable_event(self, identity, kind, content, tags=(),
                                difficulty=0):
    """Publishes a NIP-16 replaceable event.

    Only sent to relays that list NIP-16 in their information documents.

    Args:
      kind (int): 0-9999, offset into the replaceable range

    Raises:
      event.KindOutOfRange
      relay.NoRelays: if no relay supports NIP-16
    """
    return self._publish_nip16(identity, ev.replaceable_kind(kind), content,
                               tags, difficulty)

  def publish_ephemeral_event(self, identity, kind, content, tags=(),
                              difficulty=0):
    """Publishes a NIP-16 ephemeral event.

    Like :meth:`publish_replaceable_event`, in the ephemeral range.
    """
    return self._publish_nip16(identity, ev.ephemeral_kind(kind), content,
                               tags, difficulty)

  def _publish_nip16(self, identity, kind, content, tags, difficulty):
    relays = [url for url in self.relay_urls()
              if nip11.supports_nip(url, REPLACEABLE_NIP)]
    if not relays:
      raise NoRelays(f'No relays support NIP-{REPLACEABLE_NIP}')

    return self._publish_new(identity, kind, content, tags=tags,
                             difficulty=difficulty, relays=relays)
