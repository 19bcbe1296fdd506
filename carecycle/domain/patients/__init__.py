"""Patients Domain - read-only, visibility-scoped patient lookups"""
