from advisor_router.backends.interface import BackendAdapter
from advisor_router.backends.local import LocalAdapter
from advisor_router.backends.remote import RemoteAdapter
from advisor_router.backends.mock import DemoScriptedAdapter, ScriptedAdapter

__all__ = ["BackendAdapter", "DemoScriptedAdapter", "LocalAdapter", "RemoteAdapter", "ScriptedAdapter"]
