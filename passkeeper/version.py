"""Passkeeper Meta information.
   Passkeeper keeps passwords, cards, notes and files in a remote vault
   that only ever sees ciphertext.
"""
__title__ = 'passkeeper'
__description__ = (
   'Password keeper client with field-level RSA envelope encryption '
   'over a blind remote store.'
)
__version__ = '0.1.0'
__license__ = 'Apache-2.0'
