"""Booking lifecycle: confirm, cancel, reschedule, complete"""
