"""Tests for the update-controller command line tool."""
