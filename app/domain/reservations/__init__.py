"""Slot reservations held during checkout"""
