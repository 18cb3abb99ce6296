"""delphiscan CLI - dscan command."""
