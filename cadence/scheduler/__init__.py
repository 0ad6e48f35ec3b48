"""Scheduled task engine — cron evaluation, persistence, tracking and timers."""
