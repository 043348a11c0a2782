import inspect
from typing import Any, Callable, Dict


class TaskInvocationAdapter:
    """
    Adapts heterogeneous task entry point signatures
    to a uniform invocation interface.

    Only keyword arguments the callable declares are passed,
    unless it accepts **kwargs.
    """

    def __init__(self, entry_point: Callable[..., Any]):
        self.entry_point = entry_point
        try:
            params = inspect.signature(entry_point).parameters
        except (TypeError, ValueError):
            params = {}
        self._params = params
        self._accepts_var_kwargs = any(
            p.kind is inspect.Parameter.VAR_KEYWORD for p in params.values()
        )

    def accepts(self, name: str) -> bool:
        return self._accepts_var_kwargs or name in self._params

    def run(self, **kwargs: Any) -> Any:
        call_kwargs: Dict[str, Any] = {
            key: value for key, value in kwargs.items() if self.accepts(key)
        }
        return self.entry_point(**call_kwargs)
