"""
Custom permissions for the Fulfillment Order lifecycle module.
"""

from rest_framework.permissions import BasePermission


class IsWarehouseStaff(BasePermission):
    """
    Permission that allows access only to warehouse staff users.

    Checks if user is staff or belongs to the 'warehouse_staff' or
    'warehouse_manager' group.
    """

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False

        if user.is_staff:
            return True

        return user.groups.filter(name__in=['warehouse_staff', 'warehouse_manager']).exists()


class CanRunBulkOperations(BasePermission):
    """
    Permission for bulk operations and manually triggered syncs.

    Restricted to warehouse managers.
    """

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False

        return (
            user.is_staff or
            user.groups.filter(name='warehouse_manager').exists()
        )
