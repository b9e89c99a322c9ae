"""Relay sessions: one websocket connection per relay.

Sends and receives on a session are each serialized by their own lock, so
concurrent callers never interleave frames, and a reader doesn't block a writer.
"""
import logging
import threading
import urllib.parse

from oauth_dropins.webutil.util import HTTP_TIMEOUT, json_dumps
from websockets.exceptions import InvalidHandshake, InvalidURI
from websockets.sync.client import connect

logger = logging.getLogger(__name__)


class RelayError(Exception):
  """Base class for relay session and fan-out errors."""


class UrlParseError(RelayError, ValueError):
  """The relay URL isn't a valid ``ws://`` or ``wss://`` URL."""


class RelayConnectionError(RelayError):
  """Connecting to the relay failed."""


class AlreadyConnected(RelayError):
  """The client already has a session for this relay URL."""


class RelayNotFound(RelayError):
  """The client has no session for this relay URL."""


class NoRelays(RelayError):
  """The operation needs at least one connected relay, and there are none."""


class FanOutError(RelayError):
  """Sending a message to one or more relays failed.

  Sends to other relays aren't rolled back.

  Attributes:
    failures (dict): maps str relay URL to the exception it raised
    succeeded (list of str): relay URLs that the message was sent to
  """
  def __init__(self, *args, **kwargs):
    self.failures = kwargs.pop('failures', {})
    self.succeeded = kwargs.pop('succeeded', [])
    super().__init__(*args, **kwargs)


class IncompleteQuery(RelayError):
  """Some relays didn't finish answering a query.

  Attributes:
    partial (list of :class:`event.Event`): the events that did arrive, from
      every relay
    timed_out (list of str): relay URLs that didn't send ``EOSE`` in time
    failed (dict): maps str relay URL to the exception it raised
  """
  def __init__(self, *args, **kwargs):
    self.partial = kwargs.pop('partial', [])
    self.timed_out = kwargs.pop('timed_out', [])
    self.failed = kwargs.pop('failed', {})
    super().__init__(*args, **kwargs)


def validate_url(url):
  """Checks that a relay URL is a websocket URL with a host.

  Returns:
    str: ``url``

  Raises:
    UrlParseError
  """
  try:
    parsed = urllib.parse.urlparse(url)
    host = parsed.hostname
  except (AttributeError, ValueError) as e:
    raise UrlParseError(f'Invalid relay URL {url!r}: {e}') from e

  if parsed.scheme not in ('ws', 'wss') or not host:
    raise UrlParseError(f'Relay URL must be ws:// or wss://, got {url!r}')

  return url


class Relay:
  """A connected relay session.

  Attributes:
    url (str)
    websocket (websockets.sync.client.ClientConnection)
  """

  def __init__(self, url, timeout=HTTP_TIMEOUT):
    """Connects to a relay.

    Args:
      url (str): ``ws://`` or ``wss://`` relay URL
      timeout (float): websocket open and close timeout, in seconds

    Raises:
      UrlParseError
      RelayConnectionError
    """
    self.url = validate_url(url)
    self._send_lock = threading.Lock()
    self._recv_lock = threading.Lock()

    logger.debug(f'connecting to {url}')
    try:
      self.websocket = connect(url, open_timeout=timeout, close_timeout=timeout)
    except InvalidURI as e:
      raise UrlParseError(f'Invalid relay URL {url!r}: {e}') from e
    except (InvalidHandshake, OSError) as e:
      raise RelayConnectionError(f"Couldn't connect to {url}: {e}") from e

  def __repr__(self):
    return f'Relay({self.url!r})'

  def send(self, message):
    """Sends a message.

    Args:
      message (list): JSON-serializable message

    Raises:
      websockets.exceptions.ConnectionClosed
    """
    text = json_dumps(message, ensure_ascii=False)
    logger.debug(f'{self.url} <= {text}')
    with self._send_lock:
      self.websocket.send(text)

  def recv(self, timeout=None):
    """Receives one frame.

    Args:
      timeout (float): seconds to wait, including waiting for other readers.
        None waits forever. Negative is treated as 0.

    Returns:
      str: raw frame

    Raises:
      TimeoutError
      websockets.exceptions.ConnectionClosed
    """
    if timeout is not None:
      timeout = max(timeout, 0)

    if not self._recv_lock.acquire(timeout=-1 if timeout is None else timeout):
      raise TimeoutError(f'{self.url} is busy')

    try:
      msg = self.websocket.recv(timeout=timeout)
    finally:
      self._recv_lock.release()

    logger.debug(f'{self.url} => {msg}')
    return msg

  def close(self):
    logger.debug(f'closing {self.url}')
    with self._send_lock:
      self.websocket.close()
