"""
API v1 package initialization
Importing modules explicitly so they can be imported from storecompare.api.v1
"""

from storecompare.api.v1 import compare, listings, notifications, search
