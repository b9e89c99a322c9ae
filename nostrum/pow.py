"""NIP-13 proof of work.

* https://nips.nostr.com/13

Mining appends a ``["nonce", <nonce>, <target difficulty>]`` tag and searches
for a nonce that gives the event id at least ``difficulty`` leading zero bits.
Expect roughly ``2 ** difficulty`` attempts. There's no upper bound, so this is
CPU-bound and can run indefinitely for large targets; don't run it on a thread
that also services relays. :func:`mine_in_background` runs it on an executor.
"""
from concurrent.futures import ThreadPoolExecutor
import itertools
import logging
import threading

logger = logging.getLogger(__name__)

DIFFICULTY_TAG = 'nonce'

_executor = None
_executor_lock = threading.Lock()


def leading_zero_bits(data):
  """Counts the leading zero bits in a byte string.

  Args:
    data (bytes)

  Returns:
    int
  """
  total = 0
  for byte in data:
    bits = 8 - byte.bit_length()
    total += bits
    if bits != 8:
      break

  return total


def difficulty_of(event_id):
  """Returns the number of leading zero bits in a hex event id."""
  return leading_zero_bits(bytes.fromhex(event_id))


def committed_difficulty(event):
  """Returns the target difficulty in an event's nonce tag, or None.

  Args:
    event: :class:`event.Event` or :class:`event.UnsignedEvent`
  """
  for tag in event.tags:
    if len(tag) >= 3 and tag[0] == DIFFICULTY_TAG:
      try:
        return int(tag[2])
      except ValueError:
        return None


def mine(event, difficulty):
  """Mines a nonce into an unsigned event, in place.

  Each attempt appends a nonce tag and hashes. On a miss, the tag is removed and
  ``created_at`` refreshed before the next attempt.

  Args:
    event (event.UnsignedEvent)
    difficulty (int): target number of leading zero bits. 0 skips mining and
      leaves the event unchanged.

  Returns:
    event.UnsignedEvent: ``event``
  """
  if difficulty < 0:
    raise ValueError(f'difficulty must be non-negative, got {difficulty}')
  elif difficulty == 0:
    return event

  for attempts in itertools.count(1):
    event.tags.append([DIFFICULTY_TAG, str(attempts), str(difficulty)])
    if difficulty_of(event.id()) >= difficulty:
      logger.debug(f'Mined difficulty {difficulty} in {attempts} attempts')
      return event

    event.tags.pop()
    event.touch()


def mine_in_background(event, difficulty, executor=None):
  """Mines on an executor instead of the calling thread.

  The event may be pickled and copied if ``executor`` is a process pool, so use
  the returned future's result, not the original object.

  Args:
    event (event.UnsignedEvent)
    difficulty (int)
    executor (concurrent.futures.Executor): optional. Defaults to a shared
      single-thread pool.

  Returns:
    concurrent.futures.Future: resolves to the mined
    :class:`event.UnsignedEvent`
  """
  global _executor
  if executor is None:
    with _executor_lock:
      if _executor is None:
        _executor = ThreadPoolExecutor(max_workers=1,
                                       thread_name_prefix='nostrum-pow')
      executor = _executor

  return executor.submit(mine, event, difficulty)
