# adaptive_tools/database/crud/__init__.py
# Point d'entrée unique pour toutes les fonctions CRUD

from .tool_schemas import (
    get_tool_schema,
    save_tool_schema,
    mark_tool_schema_error,
    set_tool_schema_auto_refresh,
    delete_tool_schema,
    list_tool_schema_names
)
