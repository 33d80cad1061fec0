"""Pure domain entities for purchase entitlements."""
