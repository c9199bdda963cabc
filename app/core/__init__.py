"""Core Business Logic Module

This module provides the user provisioning logic, independent of Flask.

Module Structure:
    - supabase/               : Low-level Supabase client (GoTrue admin, PostgREST)
    - provisioning_service.py : Create / update / delete / bulk delete / register workflows
    - saga.py                 : Steps, failure policies and compensating rollback
    - errors.py               : Error taxonomy surfaced to callers
    - validators.py           : Input validation

Usage Pattern:
    Import explicitly when needed:
        from app.core.provisioning_service import ProvisioningService, build_provisioning_service
        from app.core.saga import Saga, Step, StepPolicy
        from app.core.errors import ValidationError, ProvisioningError
"""
