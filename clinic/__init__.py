"""Clinic application for the clinicdesk backend.

This package contains models, serializers, views and route registrations
for the front desk, queue, consultation and billing API.
"""
