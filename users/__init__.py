"""users/ -- Account operations: createAccount, login, userProfile, editProfile, verifyEmail.

Layer rule: users/ may import from auth/, mail/, and core/, never from api/.
"""
