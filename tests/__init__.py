"""Tests for jenkins-bootstrap."""
