from typing import Callable, Dict


class ActivityRegistry:
    """Central registry for all activities, keyed ``<category>:<name>``."""

    _activities: Dict[str, Callable] = {}

    @classmethod
    def register(cls, category: str, name: str = None):
        """Decorator to register an activity."""
        def decorator(activity_func):
            activity_name = name or activity_func.__name__
            key = f"{category}:{activity_name}"
            if key in cls._activities and cls._activities[key] is not activity_func:
                raise ValueError(f"Activity {key} is registered twice")
            cls._activities[key] = activity_func
            return activity_func
        return decorator

    @classmethod
    def get_all_activities(cls) -> Dict[str, Callable]:
        return cls._activities
