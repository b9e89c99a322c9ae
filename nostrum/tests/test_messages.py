"""Unit tests for messages.py."""
from oauth_dropins.webutil import testutil
from oauth_dropins.webutil.util import json_dumps

from ..filters import ReqFilter
from ..messages import (
  EoseMessage,
  EventMessage,
  NoticeMessage,
  OkMessage,
  RELAY_MESSAGE_TYPES,
  close_message,
  parse_message,
  req_message,
)

EVENT = {'id': 'ab12', 'kind': 1}


class MessagesTest(testutil.TestCase):

  def test_parse_message(self):
    for msg, expected in (
        (['EVENT', 'sub', EVENT], EventMessage('sub', EVENT)),
        (['EOSE', 'sub'], EoseMessage('sub')),
        (['OK', 'ab12', True, 'duplicate:'], OkMessage('ab12', True, 'duplicate:')),
        (['OK', 'ab12', False], OkMessage('ab12', False, '')),
        (['NOTICE', 'slow down'], NoticeMessage('slow down')),
    ):
      with self.subTest(msg=msg):
        parsed = parse_message(json_dumps(msg))
        self.assertEqual(expected, parsed)
        self.assertIsInstance(parsed, RELAY_MESSAGE_TYPES)

  def test_parse_message_unrecognized(self):
    for raw in (
        'not json',
        json_dumps({'EVENT': 'sub'}),
        json_dumps([]),
        json_dumps([1, 2]),
        json_dumps(['AUTH', 'challenge']),
        json_dumps(['EVENT', 'sub']),
        json_dumps(['EVENT', 'sub', 'not an object']),
        json_dumps(['EOSE']),
        json_dumps(['EOSE', 5]),
        json_dumps(['OK', 'ab12', 'true']),
        json_dumps(['NOTICE']),
    ):
      with self.subTest(raw=raw):
        self.assertIsNone(parse_message(raw))

  def test_req_message(self):
    self.assertEqual(['REQ', 'sub', {'kinds': [1]}, {'authors': ['ab']}],
                     req_message('sub', [ReqFilter(kinds=[1]),
                                         ReqFilter(authors=['ab'])]))

  def test_close_message(self):
    self.assertEqual(['CLOSE', 'sub'], close_message('sub'))
