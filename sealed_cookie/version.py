"""Sealed Cookie Meta information.
   Sealed Cookie stores tamper-evident, optionally encrypted credentials
   inside an HTTP cookie.
"""
__title__ = 'sealed_cookie'
__description__ = (
   'Sealed Cookie stores tamper-evident, optionally encrypted '
   'credentials inside an HTTP cookie.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/sealed-cookie'
