"""docchat: scoped, cited question answering over a user's own documents."""
