"""Request construction from templates and call-time arguments."""
