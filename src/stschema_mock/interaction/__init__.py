from .dispatcher import InteractionDispatcher, DispatchResult

__all__ = ['InteractionDispatcher', 'DispatchResult']
