"""Modules - registration, lazy activation, and handler sinks.

    Module        -- capability protocol (context_path, server_type, activate)
    FunctionModule -- a module backed by a plain activate(sink) function
    ModuleRegistry -- ordered entries, first-match resolution, once-only activation
    Dispatcher    -- middleware that activates the owning module per request
    RouteSink     -- handler sink for PRIMARY modules
"""

from perch.modules.dispatcher import Dispatcher
from perch.modules.module import ActivationState, FunctionModule, Module, ServerType
from perch.modules.registry import ModuleEntry, ModuleRegistry
from perch.modules.sinks import RouteSink

__all__ = [
    "ActivationState",
    "Dispatcher",
    "FunctionModule",
    "Module",
    "ModuleEntry",
    "ModuleRegistry",
    "RouteSink",
    "ServerType",
]
