"""Tests for the MiniDrone BLE library."""
