"""Client-side bookmark state, optimistic mutations and view projection for a reading list."""
