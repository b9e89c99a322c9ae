"""Client and relay wire messages.

Relay messages are classified once, here, into one of a closed set of types.
Everything downstream dispatches on the type instead of re-inspecting JSON.

Client to relay:

* ``["EVENT", <event>]``
* ``["REQ", <subscription id>, <filter>, ...]``
* ``["CLOSE", <subscription id>]``

Relay to client:

* ``["EVENT", <subscription id>, <event>]``
* ``["EOSE", <subscription id>]``
* ``["OK", <event id>, <true|false>, <message>]``
* ``["NOTICE", <message>]``
"""
import collections
import logging

from oauth_dropins.webutil.util import json_loads

logger = logging.getLogger(__name__)

EventMessage = collections.namedtuple('EventMessage', [
  'subscription_id', 'event'])
"""An event delivered for a subscription. ``event`` is the raw JSON object."""

EoseMessage = collections.namedtuple('EoseMessage', ['subscription_id'])
"""End of stored events for a subscription."""

OkMessage = collections.namedtuple('OkMessage', [
  'event_id', 'accepted', 'message'])
"""A relay's acceptance or rejection of a published event."""

NoticeMessage = collections.namedtuple('NoticeMessage', ['message'])
"""Human-readable message from a relay."""

RELAY_MESSAGE_TYPES = (EventMessage, EoseMessage, OkMessage, NoticeMessage)


def parse_message(raw):
  """Parses and classifies a raw relay frame.

  Args:
    raw (str): JSON

  Returns:
    :class:`EventMessage`, :class:`EoseMessage`, :class:`OkMessage`,
    :class:`NoticeMessage`, or None if the frame is malformed or of an
    unrecognized type
  """
  try:
    msg = json_loads(raw)
  except ValueError:
    logger.debug(f'Ignoring non-JSON frame {raw[:100]}')
    return None

  if not isinstance(msg, list) or not msg or not isinstance(msg[0], str):
    logger.debug(f'Ignoring frame that is not a tagged array: {raw[:100]}')
    return None

  type = msg[0]
  args = msg[1:]

  if type == 'EVENT':
    if len(args) >= 2 and isinstance(args[0], str) and isinstance(args[1], dict):
      return EventMessage(args[0], args[1])
  elif type == 'EOSE':
    if args and isinstance(args[0], str):
      return EoseMessage(args[0])
  elif type == 'OK':
    if len(args) >= 2 and isinstance(args[0], str) and isinstance(args[1], bool):
      return OkMessage(args[0], args[1], args[2] if len(args) >= 3 else '')
  elif type == 'NOTICE':
    if args:
      return NoticeMessage(str(args[0]))

  logger.debug(f'Ignoring unrecognized or malformed {type} frame: {raw[:100]}')
  return None


def event_message(event):
  """Returns an ``EVENT`` publish message for an :class:`event.Event`."""
  return ['EVENT', event.to_json()]


def req_message(subscription_id, filters):
  """Returns a ``REQ`` message.

  Args:
    subscription_id (str)
    filters (sequence of :class:`filters.ReqFilter`)
  """
  return ['REQ', subscription_id] + [f.to_json() for f in filters]


def close_message(subscription_id):
  return ['CLOSE', subscription_id]
