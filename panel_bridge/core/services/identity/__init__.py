from .reconciler import IdentityReconciler, random_coordinates

__all__ = ["IdentityReconciler", "random_coordinates"]
