"""Forex academy backend: access control, subscriptions and course billing."""
