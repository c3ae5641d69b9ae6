import os

# Keep the logger from redirecting the console to a debug.log file
os.environ['RIGCLONE_TESTENV'] = 'sigh'
