"""
Core module - Configuration, constants, exceptions, and logging

Provides:
- Settings/Config management (indexhealth.core.config)
- Enumerations and engine constants
- Custom exceptions
- Logging
"""

from indexhealth.core.constants import *
from indexhealth.core.exceptions import *
