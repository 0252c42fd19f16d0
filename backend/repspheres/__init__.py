"""RepSpheres subscription entitlement and metered-usage backend."""
