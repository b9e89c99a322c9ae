"""NIP-04 encrypted direct messages.

* https://nips.nostr.com/4

The key is the x coordinate of the ECDH shared point, unhashed. Content is
AES-256-CBC with PKCS#7 padding, serialized as
``<base64 ciphertext>?iv=<base64 iv>``.
"""
import base64
import binascii
import secrets

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

IV_SEPARATOR = '?iv='


class DecryptionError(ValueError):
  """Content isn't valid NIP-04 ciphertext for this shared secret."""


def shared_secret(secret_key, pubkey):
  """Computes the NIP-04 shared secret between a secret key and a public key.

  Args:
    secret_key (bytes): 32-byte secret scalar
    pubkey (str): hex x-only public key

  Returns:
    bytes: 32-byte shared secret
  """
  privkey = ec.derive_private_key(int.from_bytes(secret_key, 'big'),
                                  ec.SECP256K1())
  peer = ec.EllipticCurvePublicKey.from_encoded_point(
    ec.SECP256K1(), bytes.fromhex('02' + pubkey))
  return privkey.exchange(ec.ECDH(), peer)


def encrypt(shared, plaintext, iv=None):
  """Encrypts a message.

  Args:
    shared (bytes): output of :func:`shared_secret`
    plaintext (str)
    iv (bytes): optional 16-byte initialization vector. Defaults to random.

  Returns:
    str: ``<base64 ciphertext>?iv=<base64 iv>``
  """
  if iv is None:
    iv = secrets.token_bytes(16)

  padder = padding.PKCS7(algorithms.AES.block_size).padder()
  padded = padder.update(plaintext.encode()) + padder.finalize()

  encryptor = Cipher(algorithms.AES(shared), modes.CBC(iv)).encryptor()
  ciphertext = encryptor.update(padded) + encryptor.finalize()

  return (base64.b64encode(ciphertext).decode() + IV_SEPARATOR
          + base64.b64encode(iv).decode())


def decrypt(shared, content):
  """Decrypts a message.

  Args:
    shared (bytes): output of :func:`shared_secret`
    content (str): ``<base64 ciphertext>?iv=<base64 iv>``

  Returns:
    str: plaintext

  Raises:
    DecryptionError
  """
  parts = content.split(IV_SEPARATOR)
  if len(parts) != 2:
    raise DecryptionError(
      'Expected content format <encrypted_text>?iv=<initialization_vector>')

  try:
    ciphertext = base64.b64decode(parts[0], validate=True)
    iv = base64.b64decode(parts[1], validate=True)
  except binascii.Error as e:
    raise DecryptionError(f'Invalid base64: {e}') from e

  if len(iv) != 16 or not ciphertext or len(ciphertext) % 16:
    raise DecryptionError('Wrong block mode, content must be AES-256-CBC')

  decryptor = Cipher(algorithms.AES(shared), modes.CBC(iv)).decryptor()
  padded = decryptor.update(ciphertext) + decryptor.finalize()

  try:
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    plaintext = unpadder.update(padded) + unpadder.finalize()
    return plaintext.decode()
  except ValueError as e:
    raise DecryptionError(f"Couldn't decrypt: {e}") from e
