"""Nostr events: canonical serialization, ids, signing and parsing.

* https://github.com/nostr-protocol/nips/blob/master/01.md

An :class:`UnsignedEvent` is the mutable event in preparation. It can be
serialized, mined and signed. Signing returns an :class:`Event`, which is
immutable and can't be mined or signed again.
"""
import collections
from datetime import timezone
from hashlib import sha256
import logging
import re

from oauth_dropins.webutil import util
from oauth_dropins.webutil.util import json_dumps, json_loads

from . import keys, pow
from .keys import HEX_64_RE, HEX_128_RE

logger = logging.getLogger(__name__)

# Event kinds
# https://github.com/nostr-protocol/nips#event-kinds
KIND_PROFILE = 0          # NIP-01: user profile metadata
KIND_NOTE = 1             # NIP-01: text note
KIND_RECOMMEND_RELAY = 2  # NIP-01: relay recommendation
KIND_CONTACTS = 3         # NIP-02: contact list / followings
KIND_DM = 4               # NIP-04: encrypted direct message
KIND_DELETE = 5           # NIP-09: event deletion
KIND_REACTION = 7         # NIP-25: reactions (likes, dislikes, emojis)

# NIP-16
REPLACEABLE_KINDS = range(10000, 20000)
EPHEMERAL_KINDS = range(20000, 30000)
MAX_KIND = 65535

# characters allowed in a hashtag after the #
HASHTAG_CHARS = 'abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789'


class MalformedEvent(ValueError):
  """A value that isn't a well-formed signed event."""


class KindOutOfRange(ValueError):
  """A replaceable or ephemeral kind offset outside 0..9999."""


def now():
  """Returns the current time as integer seconds since the epoch."""
  return int(util.now(tz=timezone.utc).timestamp())


def serialize(pubkey, created_at, kind, tags, content):
  """Returns an event's canonical serialization, as defined by NIP-01.

  This exact string is what gets hashed into the id and signed.

  Args:
    pubkey (str): hex
    created_at (int)
    kind (int)
    tags (sequence of sequence of str)
    content (str)

  Returns:
    str: JSON array ``[0,pubkey,created_at,kind,tags,content]``
  """
  # don't escape Unicode chars!
  # https://github.com/nostr-protocol/nips/issues/354
  return json_dumps([0, pubkey, created_at, kind, tags, content],
                    separators=(',', ':'), ensure_ascii=False)


def id_for(pubkey, created_at, kind, tags, content):
  """Generates an id for a Nostr event.

  Returns:
    str: 64-character hex-encoded sha256 hash of :func:`serialize`'s output
  """
  return sha256(serialize(pubkey, created_at, kind, tags, content).encode()
                ).hexdigest()


def replaceable_kind(kind):
  """Maps 0..9999 onto the NIP-16 replaceable range.

  Raises:
    KindOutOfRange
  """
  if not 0 <= kind <= 9999:
    raise KindOutOfRange(f'Replaceable kind offset must be 0-9999, got {kind}')
  return REPLACEABLE_KINDS.start + kind


def ephemeral_kind(kind):
  """Maps 0..9999 onto the NIP-16 ephemeral range.

  Raises:
    KindOutOfRange
  """
  if not 0 <= kind <= 9999:
    raise KindOutOfRange(f'Ephemeral kind offset must be 0-9999, got {kind}')
  return EPHEMERAL_KINDS.start + kind


def is_replaceable(kind):
  return kind in REPLACEABLE_KINDS


def is_ephemeral(kind):
  return kind in EPHEMERAL_KINDS


def hashtags(content, chars=HASHTAG_CHARS):
  """Finds the hashtags in some text.

  A hashtag is a ``#`` at the start of the text or after whitespace, followed by
  one or more characters from ``chars``.

  Args:
    content (str)
    chars (str): characters allowed in a hashtag

  Returns:
    list of str: unique hashtags without the leading ``#``, in order of first
    appearance
  """
  if not content or not chars:
    return []

  pattern = re.compile(r'(?:^|(?<=\s))#([' + re.escape(chars) + ']+)')
  return list(dict.fromkeys(pattern.findall(content)))


class UnsignedEvent:
  """An event in preparation, before it has an id and signature.

  Attributes:
    pubkey (str): hex x-only public key of the author
    created_at (int): seconds since the epoch
    kind (int)
    tags (list of list of str)
    content (str)
  """

  def __init__(self, pubkey, kind, content='', tags=(), created_at=None):
    self.pubkey = pubkey
    self.kind = kind
    self.content = content
    self.tags = [list(tag) for tag in tags]
    self.created_at = now() if created_at is None else created_at

  def __repr__(self):
    return (f'UnsignedEvent(pubkey={self.pubkey!r}, kind={self.kind!r}, '
            f'created_at={self.created_at!r}, tags={self.tags!r}, '
            f'content={self.content!r})')

  def __eq__(self, other):
    return (isinstance(other, UnsignedEvent)
            and self.serialize() == other.serialize())

  def serialize(self):
    return serialize(self.pubkey, self.created_at, self.kind, self.tags,
                     self.content)

  def id(self):
    return sha256(self.serialize().encode()).hexdigest()

  def touch(self):
    """Refreshes ``created_at`` to the current time."""
    self.created_at = now()

  def mine(self, difficulty):
    """Mines a NIP-13 proof of work nonce into this event, in place.

    See :func:`pow.mine`.

    Returns:
      UnsignedEvent: this event
    """
    return pow.mine(self, difficulty)

  def sign(self, identity):
    """Computes the id, signs it, and returns the final event.

    Args:
      identity (keys.Identity): must be the event's author

    Returns:
      Event
    """
    if identity.pubkey != self.pubkey:
      raise ValueError(
        f"Identity {identity.pubkey} can't sign for pubkey {self.pubkey}")

    id = self.id()
    return Event(
      id=id,
      pubkey=self.pubkey,
      created_at=self.created_at,
      kind=self.kind,
      tags=tuple(tuple(tag) for tag in self.tags),
      content=self.content,
      sig=keys.sign(identity, id),
    )


class Event(collections.namedtuple('Event', [
    'id', 'pubkey', 'created_at', 'kind', 'tags', 'content', 'sig'])):
  """A signed event. Immutable; ``tags`` is a tuple of tuples.

  Constructing one doesn't verify it. Call :func:`verify` on events from
  untrusted sources.

  Attributes:
    id (str): hex sha256 of the canonical serialization
    pubkey (str): hex x-only public key of the author
    created_at (int): seconds since the epoch
    kind (int)
    tags (tuple of tuple of str)
    content (str)
    sig (str): hex Schnorr signature over ``id``
  """
  __slots__ = ()

  @classmethod
  def from_json(cls, obj):
    """Parses and validates a NIP-01 event JSON object.

    Args:
      obj (dict)

    Returns:
      Event

    Raises:
      MalformedEvent
    """
    if not isinstance(obj, dict):
      raise MalformedEvent(f'Expected JSON object, got {obj!r}')

    missing = set(cls._fields) - obj.keys()
    if missing:
      raise MalformedEvent(f'missing {sorted(missing)}')

    for field in 'id', 'pubkey':
      if not isinstance(obj[field], str) or not HEX_64_RE.match(obj[field]):
        raise MalformedEvent(f'{field} must be 64 lower case hex characters')

    if not isinstance(obj['sig'], str) or not HEX_128_RE.match(obj['sig']):
      raise MalformedEvent('sig must be 128 lower case hex characters')

    for field in 'created_at', 'kind':
      val = obj[field]
      if not isinstance(val, int) or isinstance(val, bool) or val < 0:
        raise MalformedEvent(f'{field} must be a non-negative integer')

    tags = obj['tags']
    if (not isinstance(tags, list)
        or not all(isinstance(tag, list) for tag in tags)
        or not all(isinstance(val, str) for tag in tags for val in tag)):
      raise MalformedEvent('tags must be a list of lists of strings')

    if not isinstance(obj['content'], str):
      raise MalformedEvent('content must be a string')

    return cls(
      id=obj['id'],
      pubkey=obj['pubkey'],
      created_at=obj['created_at'],
      kind=obj['kind'],
      tags=tuple(tuple(tag) for tag in tags),
      content=obj['content'],
      sig=obj['sig'],
    )

  def to_json(self):
    """Returns this event as a NIP-01 JSON object."""
    return {
      'id': self.id,
      'pubkey': self.pubkey,
      'created_at': self.created_at,
      'kind': self.kind,
      'tags': [list(tag) for tag in self.tags],
      'content': self.content,
      'sig': self.sig,
    }

  def serialize(self):
    return serialize(self.pubkey, self.created_at, self.kind, self.tags,
                     self.content)

  def tag_values(self, name):
    """Returns the first value of each tag named ``name``, eg ``e`` or ``p``."""
    return [tag[1] for tag in self.tags if len(tag) >= 2 and tag[0] == name]


def make_event(identity, kind, content, tags=(), difficulty=0):
  """Builds, optionally mines, and signs an event authored by ``identity``.

  Args:
    identity (keys.Identity)
    kind (int)
    content (str)
    tags (sequence of sequence of str)
    difficulty (int): NIP-13 target leading zero bits, 0 for none

  Returns:
    Event
  """
  unsigned = UnsignedEvent(identity.pubkey, kind, content, tags)
  return unsigned.mine(difficulty).sign(identity)


def verify(event):
  """Verifies an event's id and signature.

  Args:
    event (Event or dict)

  Raises:
    keys.VerificationError: :class:`keys.IdMismatch`,
      :class:`keys.MalformedSignature`, :class:`keys.MalformedKey`, or
      :class:`keys.SignatureInvalid`
  """
  if isinstance(event, dict):
    get = event.get
  else:
    get = lambda field: getattr(event, field, None)

  expected = id_for(get('pubkey'), get('created_at'), get('kind'),
                    get('tags') or [], get('content'))
  if get('id') != expected:
    raise keys.IdMismatch(f"id {get('id')} isn't the event's hash {expected}")

  keys.verify_signature(get('pubkey'), expected, get('sig'))


def is_valid(event):
  """Returns True if :func:`verify` passes, False otherwise."""
  try:
    verify(event)
    return True
  except keys.VerificationError:
    return False


def extract_events(frames, verify=False):
  """Parses the events out of raw relay ``EVENT`` frames.

  Frames that aren't JSON, aren't ``EVENT`` messages, or don't carry a
  well-formed event are skipped, as are duplicate events.

  Args:
    frames (iterable of str): raw ``["EVENT", <subscription id>, <event>]``
      messages
    verify (bool): whether to also skip events whose signatures don't verify

  Returns:
    list of Event
  """
  events = {}

  for frame in frames:
    try:
      msg = json_loads(frame)
    except ValueError:
      logger.warning(f'Skipping non-JSON frame: {frame[:100]}')
      continue

    if not isinstance(msg, list) or len(msg) < 3 or msg[0] != 'EVENT':
      logger.warning(f'Skipping non-EVENT frame: {frame[:100]}')
      continue

    try:
      event = Event.from_json(msg[2])
    except MalformedEvent as e:
      logger.warning(f'Skipping malformed event: {e}')
      continue

    if verify and not is_valid(event):
      logger.warning(f'Invalid signature for event {event.id}')
      continue

    events.setdefault(event.id, event)

  return list(events.values())
