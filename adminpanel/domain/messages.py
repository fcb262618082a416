from __future__ import annotations


# Success
LOGIN_SUCCESS = "Signed in successfully"
LOGOUT_SUCCESS = "Signed out successfully"
PASSWORD_CHANGED = "Password changed successfully"
PASSWORD_RESET = "Password reset successfully"
PASSWORD_RESET_EMAIL_SENT = "If the email is registered, a reset link has been sent"
EMAIL_CONFIRMED = "Email confirmed successfully"
UPDATED = "Updated successfully"

USER_CREATED = "User created successfully"
USER_UPDATED = "User updated successfully"
USER_DELETED = "User deleted successfully"
USER_ACTIVATED = "User activated successfully"
USER_DEACTIVATED = "User deactivated successfully"
ROLES_ASSIGNED = "Roles updated successfully"

ROLE_CREATED = "Role created successfully"
ROLE_UPDATED = "Role updated successfully"
ROLE_DELETED = "Role deleted successfully"
ROLE_ACTIVATED = "Role activated successfully"
ROLE_DEACTIVATED = "Role deactivated successfully"
PERMISSIONS_ASSIGNED = "Permissions updated successfully"

PAGE_CREATED = "Page created successfully"
PAGE_UPDATED = "Page updated successfully"
PAGE_DELETED = "Page deleted successfully"
PAGE_ACTIVATED = "Page activated successfully"
PAGE_DEACTIVATED = "Page deactivated successfully"
PAGE_ACTIONS_ASSIGNED = "Page actions updated successfully"

ACTION_CREATED = "Action created successfully"
ACTION_UPDATED = "Action updated successfully"
ACTION_DELETED = "Action deleted successfully"
ACTION_ACTIVATED = "Action activated successfully"
ACTION_DEACTIVATED = "Action deactivated successfully"

# Errors
INVALID_CREDENTIALS = "Invalid username or password"
ACCOUNT_DISABLED = "Account is disabled"
ACCOUNT_LOCKED = "Account is temporarily locked. Please try again later"
INVALID_TOKEN = "Invalid token"
TOKEN_EXPIRED = "Token has expired"
PASSWORD_MISMATCH = "Passwords do not match"
CURRENT_PASSWORD_WRONG = "Current password is incorrect"
FORBIDDEN = "You do not have permission for this action"

USER_NOT_FOUND = "User not found"
USERNAME_EXISTS = "Username is already taken"
EMAIL_EXISTS = "Email is already registered"

ROLE_NOT_FOUND = "Role not found"
ROLE_NAME_EXISTS = "Role name is already taken"
SYSTEM_ROLE_CANNOT_BE_MODIFIED = "System roles cannot be modified"
SYSTEM_ROLE_CANNOT_BE_DELETED = "System roles cannot be deleted"
ROLE_HAS_USERS = "Cannot delete a role that is assigned to users"

PERMISSION_NOT_FOUND = "Permission not found"
UNKNOWN_PERMISSIONS = "One or more permissions do not exist"

PAGE_NOT_FOUND = "Page not found"
PAGE_URL_EXISTS = "Page URL is already in use"
PAGE_HAS_CHILDREN = "Cannot delete a page that has child pages"
PARENT_PAGE_NOT_FOUND = "Parent page not found"
PAGE_PARENT_IS_SELF = "A page cannot be its own parent"
PAGE_PARENT_IS_DESCENDANT = "A child page cannot be selected as the parent"
UNKNOWN_PAGE_ACTIONS = "One or more page actions do not exist"

ACTION_NOT_FOUND = "Action not found"
ACTION_CODE_EXISTS = "Action code is already in use"
ACTION_HAS_PAGE_ACTIONS = "Cannot delete an action that is linked to pages"
UNKNOWN_ACTIONS = "One or more actions do not exist"

TENANT_NOT_FOUND = "Tenant not found"
