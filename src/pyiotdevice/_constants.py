"""Internal constants shared across the library."""

USER_AGENT = "pyiotdevice"

# Keys of the persisted identity document.
IDENTITY_FILE_NAME = "identity.json"
KEYSTORE_DIR_NAME = "keystore"
CERTIFICATE_ID_KEY = "certificateId"
CERTIFICATE_ARN_KEY = "certificateArn"

#: ARN recorded for identities imported from a bundled credential package.
BUNDLE_IDENTITY_ARN = "from-bundle"

# ------------------------------------------------------------------
# Control-plane endpoints
# ------------------------------------------------------------------

CREATE_CERTIFICATE_ENDPOINT = "/certificates"
ATTACH_POLICY_ENDPOINT = "/target-policies/{policy_name}"
LIST_ATTACHED_POLICIES_ENDPOINT = "/attached-policies/{target}"
