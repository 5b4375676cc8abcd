# Request, response and embedded document schemas
