"""Secret Drop Meta information.
   Secret Drop stores password-encrypted, self-destructing secrets.
"""
__title__ = 'secret_drop'
__description__ = (
   'Secret Drop stores password-encrypted envelopes '
   'that expire or burn after the first read.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2024 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/secret-drop'
