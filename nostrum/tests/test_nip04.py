"""Unit tests for nip04.py."""
import base64

from oauth_dropins.webutil import testutil

from .. import nip04
from ..keys import Identity
from ..nip04 import DecryptionError

ALICE = Identity('00' * 31 + '01')
BOB = Identity('00' * 31 + '03')

IV = bytes(range(16))


class Nip04Test(testutil.TestCase):

  def setUp(self):
    super().setUp()
    self.shared = nip04.shared_secret(ALICE.secret_key, BOB.pubkey)

  def test_shared_secret(self):
    # 1 * 3G == 3 * G, so the x coordinate is Bob's pubkey
    self.assertEqual(bytes.fromhex(BOB.pubkey), self.shared)
    self.assertEqual(self.shared,
                     nip04.shared_secret(BOB.secret_key, ALICE.pubkey))

  def test_encrypt_decrypt(self):
    content = nip04.encrypt(self.shared, 'hello ✨ bob')
    ciphertext, iv = content.split('?iv=')
    self.assertEqual(16, len(base64.b64decode(iv)))
    self.assertEqual(16, len(base64.b64decode(ciphertext)))
    self.assertEqual('hello ✨ bob', nip04.decrypt(self.shared, content))

  def test_encrypt_fixed_iv(self):
    first = nip04.encrypt(self.shared, 'x' * 20, iv=IV)
    self.assertEqual(first, nip04.encrypt(self.shared, 'x' * 20, iv=IV))
    self.assertTrue(first.endswith('?iv=' + base64.b64encode(IV).decode()))
    self.assertEqual(32, len(base64.b64decode(first.split('?iv=')[0])))

  def test_encrypt_random_iv(self):
    self.assertNotEqual(nip04.encrypt(self.shared, 'x'),
                        nip04.encrypt(self.shared, 'x'))

  def test_decrypt_malformed(self):
    iv = base64.b64encode(IV).decode()
    block = base64.b64encode(bytes(16)).decode()
    for bad in (
        'no iv here',
        f'{block}?iv={iv}?iv={iv}',
        f'not base64!?iv={iv}',
        f'{block}?iv=short',
        f'{base64.b64encode(bytes(15)).decode()}?iv={iv}',
        f'?iv={iv}',
        f'{block}?iv={base64.b64encode(bytes(8)).decode()}',
    ):
      with self.subTest(content=bad), self.assertRaises(DecryptionError):
        nip04.decrypt(self.shared, bad)
