"""
Configuration for the comment migrations module.
"""

# Saved object types
COMMENT_SAVED_OBJECT = "cases-comments"
SUB_CASE_SAVED_OBJECT = "cases-sub-case"

# Legacy comment type replaced by "alert" but still present in old documents
GENERATED_ALERT = "generated_alert"

# Owner assigned to comments created before owners existed
SECURITY_SOLUTION_OWNER = "securitySolution"

# Embedded visualization migrations at or above this version are deferred
MIN_DEFERRED_VERSION = "8.10.0"
