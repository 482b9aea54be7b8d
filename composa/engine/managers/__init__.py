"""Lifecycle managers for schema, objects and saved views.

Managers take an ``AccessContext`` as their first argument, check actions
and module grants before touching the store, and raise ``EngineError``
subclasses, never HTTP exceptions -- that translation is the app's
exception handler's responsibility.
"""
