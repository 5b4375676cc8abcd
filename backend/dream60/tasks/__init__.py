# Background scheduler jobs
