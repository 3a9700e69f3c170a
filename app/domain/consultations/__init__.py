"""Consultations and their proceed/decline decision"""
