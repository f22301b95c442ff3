ACC_DUE_TO_GRAVITY = 9.81
