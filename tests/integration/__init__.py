# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Integration tests for the class locator.

This package contains end-to-end tests that drive ClassLoader against real
source trees and cache directories.
"""
