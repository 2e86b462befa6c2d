"""PWM Vault Meta information.
   PWM Vault keeps logins, notes and file references as individually
   encrypted records inside a local directory.
"""
__title__ = 'pwmvault'
__description__ = (
   'PWM Vault keeps logins, notes and file references as individually '
   'encrypted records inside a local directory.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2024 pwmvault authors'
__author__ = 'pwmvault authors'
__license__ = 'Apache-2.0'
