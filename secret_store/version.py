"""Secret Store Meta information.
   Secret Store keeps a handful of credentials in one password-protected file.
"""
__title__ = 'secret_store'
__description__ = (
   'Secret Store keeps a handful of credentials encrypted '
   'in a single password-protected file.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/secret-store'
